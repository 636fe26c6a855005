"""
Persistence sink for processed offers.

Every message from ProcessedOffers becomes one JSON file with a random
name. Files are written to a temporary name in the target directory and
renamed into place, so readers never see a half-written offer.
"""
import logging
import os
import tempfile
import uuid
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

FILE_PREFIX = "offer_"
FILE_SUFFIX = ".json"


class PersistenceSink:
    """Writes processed offer messages into a directory."""

    def __init__(self, output_dir: Path | str):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def save(self, message: str) -> Optional[Path]:
        """
        Store one message as offer_<uuid>.json.

        Write failures are logged and the message is lost: deliveries are
        auto-acknowledged, so there is nothing to redeliver.

        Returns:
            Path of the written file, or None if writing failed
        """
        target = self.output_dir / f"{FILE_PREFIX}{uuid.uuid4()}{FILE_SUFFIX}"
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.output_dir, prefix=".", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(message)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error(f"Failed to save file {target.name}: {e}")
            return None

        logger.info(f"Saved offer to {target}")
        return target
