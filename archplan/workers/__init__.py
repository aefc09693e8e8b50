"""Background plan generation: worker, consumer and service host."""
