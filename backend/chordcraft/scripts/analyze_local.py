from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the chord pipeline synchronously and print the result JSON.")
    parser.add_argument("source", help="Path to an audio file, or a YouTube URL with --youtube")
    parser.add_argument("--youtube", action="store_true", help="Treat SOURCE as a YouTube URL")
    parser.add_argument("--data-dir", help="Override DATA_DIR for job records and scratch files")
    parser.add_argument("--out", help="Write the result JSON here instead of stdout")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    from chordcraft.core.config import settings
    from chordcraft.core.errors import ValidationError
    from chordcraft.services.pipeline import PipelineOrchestrator

    config = settings.model_copy(update={"DATA_DIR": args.data_dir}) if args.data_dir else settings
    # Jobs run inline below, so submission does not dispatch anywhere.
    orchestrator = PipelineOrchestrator(config=config, dispatch=lambda _job_id: None)

    try:
        if args.youtube:
            job = orchestrator.submit_youtube_job(args.source)
        else:
            path = Path(args.source).expanduser().resolve()
            job = orchestrator.submit_file_job(path, path.name)
    except ValidationError as e:
        print(f"invalid input: {e}")
        return 2

    result = orchestrator.run_job(job.job_id)
    if result is None:
        info = orchestrator.get_job_status(job.job_id)
        print(f"job {job.job_id} failed at {info.failed_step if info else '?'}: {info.error if info else ''}")
        return 1

    payload = json.dumps(result.model_dump(), ensure_ascii=False, indent=2)
    if args.out:
        Path(args.out).expanduser().write_text(payload, encoding="utf-8")
        print(f"done: {args.out}")
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
