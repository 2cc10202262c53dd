from __future__ import annotations
import argparse
import asyncio
import signal
import sys
import uvicorn
from . import events
from .logging_setup import get_logger, setup_logging
from .orchestrator import Orchestrator
from .settings import Settings
from .api import create_app

log = get_logger("mc.launcher.cli")

DETACH_COMMAND = "@detach"


def _console_middleware(attachment_ref: dict):
    def middleware(line: str):
        if line.strip() == DETACH_COMMAND:
            attachment_ref["attachment"].detach()
            log.info("Console detached; server keeps running")
            return False
        return None
    return middleware


async def _run(orch: Orchestrator, *, install: bool, accept_eula: bool, attach: bool) -> int:
    server = orch.server
    orch.prepare_environment()
    if install:
        await orch.ensure_installed()
    if accept_eula:
        server.accept_eula()
    elif not server.eula_accepted():
        log.warning("EULA not accepted in %s; the server will refuse to run", server.layout.eula)

    server.on(events.EULA_REQUIRED,
              lambda: log.error("Server requires EULA acceptance; rerun with --accept-eula"))
    server.on(events.READY, lambda: log.info("Server is ready"))

    loop = asyncio.get_running_loop()
    await server.start()

    stdin_attached = False
    if attach:
        ref: dict = {}
        attachment = server.attach(sys.stdout, _console_middleware(ref))
        ref["attachment"] = attachment

        def on_stdin() -> None:
            line = sys.stdin.readline()
            if not line:
                loop.remove_reader(sys.stdin)
                return
            attachment.feed(line.rstrip("\r\n"))

        try:
            loop.add_reader(sys.stdin, on_stdin)
            stdin_attached = True
        except (NotImplementedError, ValueError, OSError):
            log.warning("Console input not supported here; output only")

    def request_shutdown() -> None:
        log.info("Shutdown requested, stopping server")
        loop.create_task(orch.shutdown())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except (NotImplementedError, RuntimeError):
            pass

    try:
        rc = await server.wait()
    finally:
        if stdin_attached:
            loop.remove_reader(sys.stdin)
        server.detach()
    log.info("Server exited with rc=%s", rc)
    return int(rc if rc is not None else 0)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="mc-launcher")
    sub = parser.add_subparsers(dest="cmd", required=True)

    run_p = sub.add_parser("run", help="Install if needed, start the server and attach the console")
    run_p.add_argument("--no-install", action="store_true", help="Don't download the server if it is missing")
    run_p.add_argument("--accept-eula", action="store_true", help="Write eula=true before starting")
    run_p.add_argument("--no-attach", action="store_true", help="Don't mirror the console to this terminal")

    sub.add_parser("install", help="Download the configured server version and exit")

    mod_p = sub.add_parser("install-mod", help="Download a mod from the mod catalog into the mods folder")
    mod_p.add_argument("mod_id", type=int)
    mod_p.add_argument("--file-id", type=int, default=None, help="Specific file id (default: latest)")

    api_p = sub.add_parser("api", help="Run REST API (FastAPI)")
    api_p.add_argument("--host", default="0.0.0.0")
    api_p.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    settings = Settings()
    setup_logging(settings)

    if args.cmd == "run":
        orch = Orchestrator(settings)
        return asyncio.run(_run(orch, install=not args.no_install, accept_eula=args.accept_eula,
                                attach=not args.no_attach))

    if args.cmd == "install":
        orch = Orchestrator(settings)
        orch.prepare_environment()
        asyncio.run(orch.ensure_installed())
        return 0

    if args.cmd == "install-mod":
        orch = Orchestrator(settings)
        orch.prepare_environment()
        mod_file = asyncio.run(orch.install_mod(args.mod_id, args.file_id))
        print(mod_file.file_name)
        return 0

    if args.cmd == "api":
        app = create_app(settings)
        uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower(), log_config=None)
        return 0

    return 2


if __name__ == "__main__":
    sys.exit(main())
