"""End-to-end retry scenarios.

Each scenario drives a FastAPI application wrapped in ASGIRetryMiddleware
through httpx, then replays captured records with ReplayProcessor.
"""
