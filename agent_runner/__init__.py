"""Autonomous Android UI agent: observe the screen, ask a model, act, repeat."""
