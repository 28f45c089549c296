"""
Dropoff workflow: pure helpers (classification, docking ids, transition
rules) and, under workflow.impl, the components that drive a task.
"""
