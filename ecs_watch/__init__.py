"""ecs-watch - Watch AWS Elastic Container Service (ECS) cluster changes.

Polls a cluster's tasks and prints a summary whenever it changes.
"""

__version__ = "0.1.0"
