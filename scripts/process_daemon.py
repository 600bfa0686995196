import os
import subprocess
import sys
import time


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _resolve_config_path() -> str:
    explicit = os.environ.get("CONFIG_PATH")
    if explicit:
        return explicit
    for candidate in ("/app/config.yaml", "/app/examples/config.example.yaml"):
        if os.path.exists(candidate):
            return candidate
    return "/app/config.yaml"


def build_command(db_path: str) -> list[str]:
    cmd = [
        "tightbudget",
        "--config",
        _resolve_config_path(),
        "--db",
        db_path,
    ]
    env_file = os.environ.get("ENV_FILE")
    if env_file:
        cmd.extend(["--env-file", env_file])

    cmd.append("process")
    output_format = os.environ.get("OUTPUT_FORMAT")
    if output_format:
        cmd.extend(["--output", output_format])
    if _env_bool("FORCE"):
        cmd.append("--force")
    return cmd


def _run_process(db_path: str) -> None:
    result = subprocess.run(build_command(db_path), check=False)
    if result.returncode != 0:
        raise RuntimeError(f"tightbudget process failed with exit code {result.returncode}")


def main() -> int:
    db_path = os.environ.get("DB_PATH", "/data/tightbudget.db")
    poll_seconds = float(os.environ.get("POLL_SECONDS", "3600"))

    # The daily gate lives in the database, so polling more often than once a
    # day only costs a cheap no-op run.
    while True:
        try:
            _run_process(db_path)
        except Exception as exc:
            print(f"Processing error: {exc}", file=sys.stderr)
        if _env_bool("RUN_ONCE"):
            return 0
        time.sleep(poll_seconds)


if __name__ == "__main__":
    raise SystemExit(main())
