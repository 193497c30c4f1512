"""
IMAP Mirror Script

Mirrors a Gmail account into a local, deduplicated directory tree:

    <dest>/All Mail/<message-id>.gz        one stored copy per message
    <dest>/labels/<label>/<message-id>.gz  -> ../../All Mail/<message-id>.gz

Features:
- Deduplication: every message is stored once, under All Mail. Labels are
  directories of relative symlinks into the archive.
- Incremental: messages already stored are skipped, so an interrupted run
  simply continues where it stopped when started again.
- Read-only: every mailbox is opened with EXAMINE and bodies are fetched with
  BODY.PEEK, so nothing on the server changes (not even \\Seen flags).
- Messages without a Message-ID are stored under the SHA-1 of their content.

Configuration (Environment Variables):
    SRC_IMAP_HOST, SRC_IMAP_USERNAME: Source credentials.
    SRC_IMAP_PASSWORD: Source password (or App Password).

    OAuth2 (Optional - instead of password):
    SRC_OAUTH2_CLIENT_ID: OAuth2 Client ID
    SRC_OAUTH2_CLIENT_SECRET: OAuth2 Client Secret

  MIRROR_LOCAL_PATH: Destination local directory.
  BATCH_SIZE: Number of messages per fetch window (default: 128).
  MIRROR_COMPRESSION: "gzip" (default) or "none".
  OVERWRITE_LABELS: Set to "true" to rebuild the labels/ tree from scratch.
  ARCHIVE_MAILBOX: Name of the All Mail mailbox (default: auto-detected).
  MIRROR_VERBOSE: Set to "true" for debug tracing.

Usage:
    python3 imap_mirror.py \
        --user "you@gmail.com" \
        --pass "your-app-password" \
        --dest-path "./gmail-emails"
"""

import argparse
import os
import signal
import sys
import threading

from core import imap_session, mirror_sync
from core.mirror_context import COMPRESSION_GZIP, COMPRESSION_NONE, DEFAULT_BATCH_SIZE, MirrorContext
from utils import imap_common

DEFAULT_HOST = "imap.gmail.com"

# Exit status after a user abort (128 + SIGINT)
EXIT_ABORTED = 130


def positive_int(value):
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise argparse.ArgumentTypeError(f"invalid positive integer: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def env_flag(name):
    return os.getenv(name, "false").lower() == "true"


def build_parser():
    parser = argparse.ArgumentParser(description="Mirror a Gmail account into a deduplicated local directory tree.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {imap_common.get_version()}")

    # Source
    default_user = os.getenv("SRC_IMAP_USERNAME")
    default_pass = os.getenv("SRC_IMAP_PASSWORD")
    default_client_id = os.getenv("SRC_OAUTH2_CLIENT_ID")

    parser.add_argument(
        "--host",
        default=os.getenv("SRC_IMAP_HOST") or DEFAULT_HOST,
        help=f"IMAP Server (or SRC_IMAP_HOST, default {DEFAULT_HOST})",
    )
    parser.add_argument(
        "--user",
        default=default_user,
        required=not bool(default_user),
        help="Username (or SRC_IMAP_USERNAME)",
    )

    # Authentication: require either password OR OAuth2 client-id (unless provided via env vars)
    auth_required = not bool(default_pass or default_client_id)
    auth_group = parser.add_mutually_exclusive_group(required=auth_required)
    auth_group.add_argument("--pass", dest="password", default=default_pass, help="Password (or SRC_IMAP_PASSWORD)")
    auth_group.add_argument(
        "--oauth2-client-id",
        dest="client_id",
        default=default_client_id,
        help="Google OAuth2 Client ID (or SRC_OAUTH2_CLIENT_ID)",
    )
    parser.add_argument(
        "--oauth2-client-secret",
        dest="client_secret",
        default=os.getenv("SRC_OAUTH2_CLIENT_SECRET"),
        help="Google OAuth2 Client Secret (or SRC_OAUTH2_CLIENT_SECRET)",
    )

    # Destination (Local Path)
    env_path = os.getenv("MIRROR_LOCAL_PATH")
    parser.add_argument(
        "--dest-path",
        default=env_path,
        required=not bool(env_path),
        help="Local mirror directory (or MIRROR_LOCAL_PATH)",
    )

    # Config
    parser.add_argument(
        "--batch",
        type=positive_int,
        default=os.getenv("BATCH_SIZE", str(DEFAULT_BATCH_SIZE)),
        help=f"Messages per fetch window (default {DEFAULT_BATCH_SIZE})",
    )
    parser.add_argument(
        "--uncompressed",
        action="store_true",
        default=os.getenv("MIRROR_COMPRESSION", COMPRESSION_GZIP).lower() == COMPRESSION_NONE,
        help="Store messages as plain files instead of .gz (or MIRROR_COMPRESSION=none)",
    )
    parser.add_argument(
        "--overwrite-labels",
        action="store_true",
        default=env_flag("OVERWRITE_LABELS"),
        help="Delete and rebuild the labels/ directory (All Mail is kept)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite labels/ even if it contains real files outside Trash",
    )
    parser.add_argument(
        "--archive-mailbox",
        default=os.getenv("ARCHIVE_MAILBOX"),
        help="All Mail mailbox name (default: [Gmail]/All Mail or [Google Mail]/All Mail)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=env_flag("MIRROR_VERBOSE"),
        help="Print debug tracing",
    )
    return parser


def check_overwrite_safe(labels_dir):
    """Returns True when wiping labels_dir loses nothing but symlinks and trash."""
    unsafe = mirror_sync.find_unsafe_label_files(labels_dir)
    if not unsafe:
        return True
    print(f"\nWARNING: There are {len(unsafe)} non-symlink files outside of labels/Trash.")
    print(f"(Use 'find {labels_dir} -type f' to see them)")
    print("Re-run with --force to overwrite the labels/ directory anyway.")
    return False


def install_interrupt_handler(cancel_event):
    """
    First Ctrl-C asks the run to stop before its next server round trip.
    A second Ctrl-C interrupts immediately.
    """

    def handle_sigint(signum, frame):
        print("\nInterrupt received, stopping after the current request...")
        cancel_event.set()
        signal.signal(signal.SIGINT, signal.default_int_handler)

    return signal.signal(signal.SIGINT, handle_sigint)


def main():
    parser = build_parser()
    args = parser.parse_args()

    context = MirrorContext(
        args.dest_path,
        compression=COMPRESSION_NONE if args.uncompressed else COMPRESSION_GZIP,
        batch_size=args.batch,
        overwrite_labels=args.overwrite_labels,
        archive_mailbox=args.archive_mailbox,
        verbose=args.verbose,
    )

    if context.overwrite_labels and not args.force and not check_overwrite_safe(context.labels_dir):
        print("Abort.")
        sys.exit(1)

    # Build connection config (acquires OAuth2 token if configured)
    conf = imap_session.build_imap_conf(args.host, args.user, args.password, args.client_id, args.client_secret)

    if not os.path.exists(context.workdir):
        try:
            os.makedirs(context.workdir)
            print(f"Created mirror directory: {context.workdir}")
        except OSError as e:
            print(f"Error creating mirror directory: {e}")
            sys.exit(1)

    print("\n--- Configuration Summary ---")
    print(f"Host            : {args.host}")
    print(f"User            : {args.user}")
    print(f"Auth Method     : {imap_session.auth_description(conf)}")
    print(f"Destination Path: {context.workdir}")
    print(f"Compression     : {context.compression}")
    print(f"Batch Size      : {context.batch_size}")
    if args.archive_mailbox:
        print(f"Archive Mailbox : {args.archive_mailbox}")
    if context.overwrite_labels:
        print("Overwrite Labels: Yes (labels/ is rebuilt)")
    print("-----------------------------\n")

    conn = imap_common.get_imap_connection_from_conf(conf)
    if not conn:
        sys.exit(1)

    session = imap_session.MailboxSession(conn, context.cancel_event)
    previous_handler = None
    if threading.current_thread() is threading.main_thread():
        previous_handler = install_interrupt_handler(context.cancel_event)

    try:
        results = mirror_sync.run_mirror(session, context)
    except (imap_session.SyncCancelled, KeyboardInterrupt):
        context.progress.finish()
        print("Abort.")
        session.sign_off()
        sys.exit(EXIT_ABORTED)
    except Exception:
        session.sign_off()
        raise
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    session.sign_off()
    mirror_sync.print_summary(results, context.log)
    print("\nMirror completed successfully.")


def cli():
    try:
        main()
    except KeyboardInterrupt:
        print("\nProcess terminated by user.")
        sys.exit(0)
    except Exception as e:
        print(f"Fatal Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
