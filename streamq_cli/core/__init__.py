"""
Core application engine for the download queue.

This package contains the primary logic. The `QueueController` owns the queue
and its run state, delegating each drain cycle to the `ProcessingLoop`, which
hands individual items to a download engine.
"""
