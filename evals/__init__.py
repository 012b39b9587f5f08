"""
Evaluation suite for collabengine.

Run evals: pytest evals/ -v
Test doubles live in evals/fakes.py; fixtures in evals/conftest.py.
"""
