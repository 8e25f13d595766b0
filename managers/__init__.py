# Managers module exports
from managers.backup_manager import safe_filename, ensure_backup_dir, write_backup
from managers.export_manager import run_backup

__all__ = [
    # Backup writer
    "safe_filename",
    "ensure_backup_dir",
    "write_backup",
    # Orchestration
    "run_backup",
]
