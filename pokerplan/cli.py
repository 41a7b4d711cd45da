"""
pokerplan CLI - Command-line client and server launcher.

Usage:
    pokerplan serve                      Run the session store service
    pokerplan create [--topic T]         Create a session (you are admin)
    pokerplan join <session> [--name N]  Join a session
    pokerplan vote <session> <card>      Cast or change your vote
    pokerplan reveal <session>           Reveal all votes (admin)
    pokerplan reset <session> [--topic]  Start a new round (admin)
    pokerplan show <session>             Print the session once
    pokerplan watch <session>            Follow the session live
    pokerplan link <session>             Print the share link
    pokerplan whoami                     Print your participant id and name
    pokerplan name <name>                Set your display name

<session> may be a session id or a share link.
"""

import argparse
import asyncio
import logging
import sys

from .config import Settings, get_settings
from .engine_core.cards import CARD_SET
from .engine_core.reducer import SessionStateMachine
from .engine_core.tally import NO_VOTE
from .identity import IdentityProvider, JsonFileKeyValueStore
from .session import (
    ClientReconciler,
    CommandRejected,
    EntryMode,
    ParticipantCapPolicy,
    ReconcilerState,
    SessionView,
    build_share_link,
    parse_entry,
)
from .store import HttpSessionStore

LOAD_TIMEOUT_SECONDS = 10.0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="pokerplan - Real-time planning poker",
        prog="pokerplan",
    )
    parser.add_argument("--server", help="Store service URL (default: $POKERPLAN_SERVER_URL)")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the session store service")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")

    # Create command
    create_parser = subparsers.add_parser("create", help="Create a new session")
    create_parser.add_argument("--topic", help="Topic of the first round")
    create_parser.add_argument("--name", help="Your display name")

    # Join command
    join_parser = subparsers.add_parser("join", help="Join a session")
    join_parser.add_argument("session", help="Session id or share link")
    join_parser.add_argument("--name", help="Your display name")

    # Vote command
    vote_parser = subparsers.add_parser("vote", help="Cast your vote")
    vote_parser.add_argument("session", help="Session id or share link")
    vote_parser.add_argument("card", help=f"One of: {', '.join(CARD_SET)}")

    # Admin commands
    reveal_parser = subparsers.add_parser("reveal", help="Reveal all votes")
    reveal_parser.add_argument("session", help="Session id or share link")

    reset_parser = subparsers.add_parser("reset", help="Clear votes for a new round")
    reset_parser.add_argument("session", help="Session id or share link")
    reset_parser.add_argument("--topic", help="Topic of the next round")

    # Read commands
    show_parser = subparsers.add_parser("show", help="Print the session")
    show_parser.add_argument("session", help="Session id or share link")

    watch_parser = subparsers.add_parser("watch", help="Follow the session live")
    watch_parser.add_argument("session", help="Session id or share link")

    link_parser = subparsers.add_parser("link", help="Print the share link")
    link_parser.add_argument("session", help="Session id or share link")

    # Identity commands
    subparsers.add_parser("whoami", help="Print your participant id and name")
    name_parser = subparsers.add_parser("name", help="Set your display name")
    name_parser.add_argument("name", help="Display name")

    args = parser.parse_args(argv)

    settings = get_settings()
    if args.server:
        settings.server_url = args.server
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "serve": cmd_serve,
        "create": cmd_create,
        "join": cmd_join,
        "vote": cmd_vote,
        "reveal": cmd_reveal,
        "reset": cmd_reset,
        "show": cmd_show,
        "watch": cmd_watch,
        "link": cmd_link,
        "whoami": cmd_whoami,
        "name": cmd_name,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)
    handler(args, settings)


# =============================================================================
# Wiring
# =============================================================================

def build_identity(settings: Settings) -> IdentityProvider:
    return IdentityProvider(JsonFileKeyValueStore(settings.identity_path))


def build_reconciler(settings: Settings, store) -> ClientReconciler:
    return ClientReconciler(
        store=store,
        identity=build_identity(settings),
        machine=SessionStateMachine(default_topic=settings.default_topic),
        cap_policy=ParticipantCapPolicy(max_participants=settings.max_participants),
    )


def resolve_session_id(value: str) -> str:
    """Accept a bare id or a share link."""
    entry = parse_entry(value)
    if entry.mode == EntryMode.JOIN:
        return entry.session_id
    return value.strip()


async def wait_until_loaded(reconciler: ClientReconciler, session_id: str) -> SessionView:
    """Attach and wait for the first snapshot to be processed."""
    loop = asyncio.get_running_loop()
    loaded = loop.create_future()

    def on_change(view: SessionView):
        if view.state != ReconcilerState.LOADING and not loaded.done():
            loaded.set_result(view)

    remove = reconciler.on_change(on_change)
    try:
        reconciler.attach(session_id)
        if reconciler.state != ReconcilerState.LOADING:
            return reconciler.view
        return await asyncio.wait_for(loaded, timeout=LOAD_TIMEOUT_SECONDS)
    finally:
        remove()


def render_view(view: SessionView) -> str:
    """Plain-text rendering of a session view."""
    if view.state == ReconcilerState.ERROR:
        return f"Error: {view.error.value if view.error else 'unknown'}: {view.error_message}"
    if view.session is None:
        return "Loading..."

    session = view.session
    lines = [
        f"Session: {view.session_id}",
        f"Topic: {session.topic}",
        f"Participants ({session.participant_count}):",
    ]
    for p in view.participants:
        marker = " (you)" if p.participant_id == view.local_participant_id else ""
        lines.append(f"  {p.label}{marker}: {p.display_vote}")

    if view.revealed and view.tally is not None:
        lines.append(f"Average: {view.tally.average:.1f}")
        lines.append("Votes: " + "  ".join(f"{card}={count}" for card, count in view.tally.histogram()))
    else:
        lines.append("Votes hidden until reveal.")

    if view.my_vote is not None:
        lines.append(f"Your vote: {view.my_vote}")
    elif view.is_participant and not view.is_admin:
        lines.append(f"Your vote: {NO_VOTE}")
    return "\n".join(lines)


def _run(coro):
    try:
        return asyncio.run(coro)
    except CommandRejected as e:
        print(f"Error: {e.kind.value}: {e}")
        sys.exit(1)
    except asyncio.TimeoutError:
        print("Error: timed out waiting for the session")
        sys.exit(1)


async def _with_session(settings: Settings, session_ref: str, action):
    """Load a session, run action(reconciler), wait for its writes."""
    async with HttpSessionStore(settings.server_url) as store:
        reconciler = build_reconciler(settings, store)
        view = await wait_until_loaded(reconciler, resolve_session_id(session_ref))
        if view.state == ReconcilerState.ERROR:
            print(render_view(view))
            sys.exit(1)
        result = action(reconciler)
        await reconciler.drain()
        reconciler.detach()
        if reconciler.last_write_error is not None:
            print(f"Error: {reconciler.last_write_error.kind.value}: {reconciler.last_write_error.message}")
            sys.exit(1)
        return result


# =============================================================================
# Commands
# =============================================================================

def cmd_serve(args, settings: Settings):
    """Run the session store service."""
    import uvicorn

    uvicorn.run(
        "pokerplan.api.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_level=settings.log_level.lower(),
    )


def cmd_create(args, settings: Settings):
    """Create a new session with this device as admin."""

    async def run():
        async with HttpSessionStore(settings.server_url) as store:
            reconciler = build_reconciler(settings, store)
            if args.name:
                reconciler.identity.set_display_name(args.name)
            session_id = await reconciler.create_session(args.topic)
            await reconciler.drain()
            reconciler.detach()
            return session_id, reconciler.last_write_error

    session_id, write_error = _run(run())
    if session_id is None:
        print(f"Error: {write_error.kind.value}: {write_error.message}")
        sys.exit(1)
    print(f"Session created: {session_id}")
    print(f"Share link: {build_share_link(settings.share_base_url, session_id)}")


def cmd_join(args, settings: Settings):
    """Join a session."""

    def action(reconciler: ClientReconciler):
        if args.name:
            return reconciler.submit_name(args.name)
        return reconciler.join()

    _run(_with_session(settings, args.session, action))
    print("Joined.")


def cmd_vote(args, settings: Settings):
    """Cast or change a vote."""
    _run(_with_session(settings, args.session, lambda r: r.submit_vote(args.card)))
    print(f"Vote sent: {args.card}")


def cmd_reveal(args, settings: Settings):
    """Reveal all votes."""
    _run(_with_session(settings, args.session, lambda r: r.reveal()))
    print("Votes revealed.")


def cmd_reset(args, settings: Settings):
    """Clear all votes for a new round."""
    _run(_with_session(settings, args.session, lambda r: r.reset(args.topic)))
    print("Session reset.")


def cmd_show(args, settings: Settings):
    """Print the session once."""

    async def run():
        async with HttpSessionStore(settings.server_url) as store:
            reconciler = build_reconciler(settings, store)
            view = await wait_until_loaded(reconciler, resolve_session_id(args.session))
            reconciler.detach()
            return view

    view = _run(run())
    print(render_view(view))
    if view.state == ReconcilerState.ERROR:
        sys.exit(1)


def cmd_watch(args, settings: Settings):
    """Print the session after every change until interrupted."""

    async def run():
        async with HttpSessionStore(settings.server_url) as store:
            reconciler = build_reconciler(settings, store)
            reconciler.on_change(lambda view: print(render_view(view) + "\n"))
            reconciler.attach(resolve_session_id(args.session))
            try:
                await asyncio.Event().wait()
            finally:
                reconciler.detach()

    try:
        _run(run())
    except KeyboardInterrupt:
        pass


def cmd_link(args, settings: Settings):
    """Print the share link of a session."""
    print(build_share_link(settings.share_base_url, resolve_session_id(args.session)))


def cmd_whoami(args, settings: Settings):
    identity = build_identity(settings)
    print(f"Participant id: {identity.get_or_create_participant_id()}")
    print(f"Display name: {identity.get_display_name() or '(not set)'}")


def cmd_name(args, settings: Settings):
    identity = build_identity(settings)
    identity.set_display_name(args.name)
    print(f"Display name: {identity.get_display_name() or '(cleared)'}")


if __name__ == "__main__":
    main()
