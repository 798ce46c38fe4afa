# Flat text exports: the per-student course report (CSV) and a student's video notes
import os
from typing import Dict, Iterable

import schemas

REPORT_HEADERS = ["Student Name", "Submitted Assignments", "Average Grade (%)"]


def _csv_cell(value) -> str:
    return '"' + str(value).replace('"', '""') + '"'


def student_report_csv(report: Dict[str, object]) -> str:
    """One row per enrolled student, built from queries.course_report()."""
    rows = [
        ",".join([_csv_cell(s["name"]), str(s["submitted_count"]), f"{s['average_grade']:.2f}"])
        for s in report["student_stats"]
    ]
    return "\n".join([",".join(REPORT_HEADERS), *rows])


def report_file_name(course: schemas.Course) -> str:
    return f"{course.title}_student_report.csv"


def format_timestamp(total_seconds: float) -> str:
    # MM:SS; minutes keep growing past 59
    minutes, seconds = divmod(int(total_seconds), 60)
    return f"{minutes:02d}:{seconds:02d}"


def video_notes_title(video: schemas.VideoMaterial) -> str:
    stem, _ = os.path.splitext(video.file_name)
    return f"Notes for {stem}"


def video_notes_text(video: schemas.VideoMaterial, notes: Iterable[schemas.VideoNote]) -> str:
    lines = [f"[{format_timestamp(n.timestamp)}] - {n.content}" for n in notes]
    return f"{video_notes_title(video)}\n\n" + "\n".join(lines)
