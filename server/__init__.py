"""FastAPI serving layer over the recommendation engine."""
