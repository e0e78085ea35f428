from streetview_drive_migration.progress.state import (
    Phase,
    ProgressSink,
    ProgressSnapshot,
    ProgressState,
    compute_diff,
)

__all__ = ['Phase', 'ProgressSink', 'ProgressSnapshot', 'ProgressState', 'compute_diff']
