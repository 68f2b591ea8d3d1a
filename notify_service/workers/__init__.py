"""Background worker task definitions.

Task modules register with the broker in ``infra/tasks/broker.py`` on import.
"""
