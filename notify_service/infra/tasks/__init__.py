"""Task execution infrastructure using Taskiq.

- broker.py: broker selection (RabbitMQ or in-memory) and the label scheduler

For task definitions, see the ``workers/`` package.
"""
