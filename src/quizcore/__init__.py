"""quizcore: quiz scoring, rank progression, and tiered request rate limiting."""
