"""
Infrastructure: storage backends, Redis connections, rewrite rules,
write circuit breaker and exceptions.
"""
