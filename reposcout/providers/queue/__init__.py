"""Work queue providers.

SQLiteTaskQueue gives at-least-once delivery with a visibility timeout,
backed by data/task_queue.db so several worker processes can share it.
"""

from reposcout.providers.queue.sqlite_task_queue import SQLiteTaskQueue

__all__ = ["SQLiteTaskQueue"]
