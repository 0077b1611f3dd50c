"""Adaptive objective selection and scoring backend for the quiz coach."""
