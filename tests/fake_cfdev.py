"""Stand-in for `cf dev` used by the end-to-end tests.

Usage:
    python fake_cfdev.py --home DIR --marker M start [-f IMAGE]
    python fake_cfdev.py --home DIR --marker M stop
    python fake_cfdev.py --home DIR --marker M bosh env

`start` prints the VPNKit announcement, writes http_proxy.json, spawns one
detached sleeper per component (argv: "<marker>-vpnkit" etc.), writes their
pid files and exits 0. `stop` SIGKILLs the pids in the pid files.

Environment knobs:
    FAKE_CFDEV_START_EXIT    exit status of `start` (default 0)
    FAKE_CFDEV_START_DELAY   seconds `start` lingers before exiting
    FAKE_CFDEV_SKIP_HYPERKIT don't spawn the hypervisor (no hyperkit.pid)
    FAKE_CFDEV_STOP_EXIT     exit status of `stop` (default 0)
    FAKE_CFDEV_STOP_NOOP     `stop` leaves the components running
    FAKE_CFDEV_LONG_LINE     `start` prints a line of this many characters before the marker
"""

import argparse
import os
import signal
import subprocess
import sys
import time
from pathlib import Path

COMPONENTS = ("vpnkit", "linuxkit", "hyperkit")


def _write_atomic(path: Path, content: str) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(content)
    tmp.replace(path)


def start(home: Path, marker: str, image: str | None) -> int:
    print("Downloading Resources...", flush=True)
    if long_line := int(os.environ.get("FAKE_CFDEV_LONG_LINE", "0")):
        print("#" * long_line, flush=True)
    if image:
        print(f"Using image {image}", flush=True)
    print("Starting VPNKit ...", flush=True)

    state = home / "state"
    state.mkdir(parents=True, exist_ok=True)
    _write_atomic(home / "http_proxy.json", "{}")

    for component in COMPONENTS:
        if component == "hyperkit" and os.environ.get("FAKE_CFDEV_SKIP_HYPERKIT"):
            continue
        proc = subprocess.Popen(
            [sys.executable, "-c", "import time; time.sleep(300)", f"{marker}-{component}"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
        _write_atomic(state / f"{component}.pid", f"{proc.pid}\n")
        print(f"Started {component} ({proc.pid})", flush=True)

    time.sleep(float(os.environ.get("FAKE_CFDEV_START_DELAY", "0")))
    print("Done deploying", flush=True)
    return int(os.environ.get("FAKE_CFDEV_START_EXIT", "0"))


def stop(home: Path) -> int:
    if not os.environ.get("FAKE_CFDEV_STOP_NOOP"):
        for component in COMPONENTS:
            pid_file = home / "state" / f"{component}.pid"
            try:
                pid = int(pid_file.read_text().strip())
            except (OSError, ValueError):
                continue
            try:
                os.kill(pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            pid_file.unlink()
    print("CF Dev stopped", flush=True)
    return int(os.environ.get("FAKE_CFDEV_STOP_EXIT", "0"))


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--home", type=Path, required=True)
    parser.add_argument("--marker", required=True)
    parser.add_argument("action")
    parser.add_argument("rest", nargs="*")
    parser.add_argument("-f", dest="image")
    args = parser.parse_args()

    if args.action == "start":
        return start(args.home, args.marker, args.image)
    if args.action == "stop":
        return stop(args.home)
    if args.action == "bosh":
        print("export BOSH_ENVIRONMENT=10.245.0.2", flush=True)
        return 0
    print(f"unknown action {args.action}", file=sys.stderr)
    return 2


if __name__ == "__main__":
    sys.exit(main())
