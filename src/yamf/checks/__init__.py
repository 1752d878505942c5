"""
Check framework dialects: each drives a MarkingListener with the lifecycle of
the checks it executes.
"""
