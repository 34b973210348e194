"""批次结束后的 CSV 报告。"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable

from image_transcoder.core.models import TranscodeOutcome

FIELDS = (
    "source_path",
    "status",
    "output_path",
    "quality",
    "size_bytes",
    "copied",
    "phash_distance",
    "ssim",
    "message",
)


def write_csv_report(outcomes: Iterable[TranscodeOutcome], output_dir: Path, filename: str) -> Path:
    """每个任务一行；没有的值留空。"""

    report_path = output_dir / filename
    with report_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=FIELDS, restval="")
        writer.writeheader()
        writer.writerows(_row(outcome) for outcome in outcomes)
    return report_path


def _row(outcome: TranscodeOutcome) -> dict[str, object]:
    row: dict[str, object] = {
        "source_path": outcome.source_path,
        "status": outcome.status.value,
        "copied": "yes" if outcome.copied else "",
        # 校验失败的原因与体积警告一起放在 message 列
        "message": "; ".join(text for text in (outcome.message, outcome.verify_error) if text),
    }
    for key in ("output_path", "quality", "size_bytes", "phash_distance"):
        value = getattr(outcome, key)
        if value is not None:
            row[key] = value
    if outcome.ssim is not None:
        row["ssim"] = f"{outcome.ssim:.4f}"
    return row
