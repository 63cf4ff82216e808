import os
import logging
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)


class BatchFixer:
    """
    Applies byte-offset text edits to sources and files.
    Handles offset shifts by applying edits in reverse order (bottom-up).
    """

    def __init__(self):
        self.errors: Dict[str, str] = {}    # file_path -> why the last write failed

    def apply_edits(self, source: bytes, edits: List[Dict]) -> Tuple[bytes, int]:
        """
        edits: [ {start_byte, end_byte, text}, ... ]
        Returns (new_source, number_of_edits_applied).  Overlapping edits are
        skipped with a warning; callers are expected to pass disjoint edits.
        """
        # Sort descending by start; for equal starts, the longer edit goes first
        # so a zero-width insertion lands before the replaced text.
        sorted_edits = sorted(edits, key=lambda e: (e["start_byte"], e["end_byte"]), reverse=True)

        last_start = float("inf")
        new_content = bytearray(source)
        applied = 0

        for edit in sorted_edits:
            start = edit["start_byte"]
            end = edit["end_byte"]
            text = edit["text"].encode("utf-8")

            if end > last_start or start > end or end > len(source):
                logger.warning("Overlapping or out-of-range edit at offset %d-%d. Skipping edit.", start, end)
                continue

            new_content[start:end] = text
            last_start = start
            applied += 1

        return bytes(new_content), applied

    def apply_fixes_by_file(self, file_map: Dict[str, bytes], dry_run: bool = False) -> Dict[str, int]:
        """
        file_map: { file_path: rewritten_source }
        Writes each rewritten source in place.  Returns {file_path: bytes_written}.
        """
        summary = {}
        self.errors.clear()

        for file_path, content in file_map.items():
            try:
                msg = self._write_file(file_path, content, dry_run)
                summary[file_path] = len(content)
                logger.info(msg)
            except OSError as e:
                logger.error("Failed to write fixes to %s: %s", file_path, e)
                summary[file_path] = 0
                self.errors[file_path] = str(e)

        return summary

    def _write_file(self, file_path: str, content: bytes, dry_run: bool) -> str:
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"File not found: {file_path}")

        if dry_run:
            return f"[Dry Run] Would rewrite {file_path}"

        tmp_path = file_path + ".jssimplify.tmp"
        try:
            with open(tmp_path, "wb") as f:
                f.write(content)
            os.replace(tmp_path, file_path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        return f"Rewrote {file_path}"
