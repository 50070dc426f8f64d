from __future__ import annotations

import zipfile
from datetime import datetime
from pathlib import Path

from storefront.config import settings


def make_backup() -> str:
    """
    ZIP of the shop database plus every generated receipt.
    Returns the zip path.
    """
    db_path = Path(settings.db_path)
    exports_dir = Path(settings.export_dir)
    backups_dir = Path(settings.backup_dir)
    backups_dir.mkdir(parents=True, exist_ok=True)

    ts = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    zip_path = backups_dir / f"backup_{ts}.zip"

    with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as z:
        if db_path.exists():
            z.write(db_path, arcname=f"db/{db_path.name}")

        if exports_dir.exists():
            for p in exports_dir.glob("*.pdf"):
                z.write(p, arcname=f"receipts/{p.name}")

    return str(zip_path)
