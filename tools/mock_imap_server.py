import re
import socketserver
import threading

RESPONSE_SELECT_FIRST = "NO Select first"

_HEADER_FIELDS_PATTERN = re.compile(r"BODY(?:\.PEEK)?\[HEADER\.FIELDS \(([^)]*)\)\]", re.IGNORECASE)


def parse_sequence_set(seq_set, count):
    """
    Expands an IMAP sequence set ("1:3,7,9:*") into sequence numbers that
    exist in a mailbox of `count` messages.
    """
    numbers = []
    for part in seq_set.split(","):
        if ":" in part:
            lo, hi = part.split(":", 1)
            lo = count if lo == "*" else int(lo)
            hi = count if hi == "*" else int(hi)
            if lo > hi:
                lo, hi = hi, lo
            numbers.extend(range(lo, hi + 1))
        else:
            numbers.append(count if part == "*" else int(part))
    return [n for n in numbers if 1 <= n <= count]


def header_fields(content, names):
    """Returns the requested header lines of `content` followed by the blank line."""
    head = content.split(b"\r\n\r\n", 1)[0]
    wanted = {n.strip().lower() for n in names}
    lines = []
    for line in head.split(b"\r\n"):
        name = line.split(b":", 1)[0].strip().decode("utf-8", errors="ignore").lower()
        if name in wanted:
            lines.append(line + b"\r\n")
    return b"".join(lines) + b"\r\n"


class MockIMAPHandler(socketserver.StreamRequestHandler):
    """
    A minimal IMAP4rev1 mock server handler for testing purposes.
    Supports the read-only commands used by the mirror: LIST, EXAMINE and
    sequence-number FETCH of header fields, UID and full bodies.
    """

    def handle(self):
        self.wfile.write(b"* OK [CAPABILITY IMAP4rev1 AUTH=XOAUTH2] Mock IMAP Server Ready\r\n")
        self.selected_folder = None
        self.current_folders = self.server.folders

        while True:
            try:
                line = self.rfile.readline()
                if not line:
                    break
                line = line.decode("utf-8").strip()
                if not line:
                    continue

                parts = line.split(" ", 2)
                tag = parts[0]
                cmd = parts[1].upper()
                args = parts[2] if len(parts) > 2 else ""
                self.server.commands.append((cmd, args))

                if cmd == "LOGIN":
                    self.send_response(tag, "OK LOGIN completed")

                elif cmd == "AUTHENTICATE":
                    # XOAUTH2: one continuation, any token is accepted
                    self.wfile.write(b"+ \r\n")
                    self.wfile.flush()
                    self.rfile.readline()
                    self.send_response(tag, "OK AUTHENTICATE completed")

                elif cmd == "LOGOUT":
                    self.wfile.write(b"* BYE Mock IMAP Server logging out\r\n")
                    self.send_response(tag, "OK LOGOUT completed")
                    break

                elif cmd == "CAPABILITY":
                    self.wfile.write(b"* CAPABILITY IMAP4rev1 AUTH=XOAUTH2\r\n")
                    self.send_response(tag, "OK CAPABILITY completed")

                elif cmd == "LIST":
                    delimiter = self.server.delimiter
                    for folder, msgs in self.current_folders.items():
                        # None marks a non-selectable parent such as "[Gmail]"
                        attrs = "\\Noselect \\HasChildren" if msgs is None else "\\HasNoChildren"
                        self.wfile.write(f'* LIST ({attrs}) "{delimiter}" "{folder}"\r\n'.encode())
                    self.send_response(tag, "OK LIST completed")

                elif cmd in ("SELECT", "EXAMINE"):
                    folder = args.strip().strip('"')
                    if self.current_folders.get(folder) is not None:
                        self.selected_folder = folder
                        count = len(self.current_folders[folder])
                        self.wfile.write(f"* {count} EXISTS\r\n".encode())
                        self.wfile.write(b"* 0 RECENT\r\n")
                        self.wfile.write(b"* FLAGS (\\Seen \\Answered \\Flagged \\Deleted \\Draft)\r\n")
                        self.wfile.write(b"* OK [UIDVALIDITY 1] UIDs valid\r\n")
                        mode = "READ-ONLY" if cmd == "EXAMINE" else "READ-WRITE"
                        self.send_response(tag, f"OK [{mode}] {cmd} completed")
                    else:
                        self.selected_folder = None
                        self.send_response(tag, "NO [NONEXISTENT] Folder not found")

                elif cmd == "FETCH":
                    # Non-UID FETCH - args is e.g. "1:3,7 (BODY.PEEK[])"
                    if not self.selected_folder:
                        self.send_response(tag, RESPONSE_SELECT_FIRST)
                        continue

                    fetch_parts = args.split(" ", 1)
                    opts = fetch_parts[1] if len(fetch_parts) > 1 else ""
                    msgs = self.current_folders[self.selected_folder]

                    for msg_num in parse_sequence_set(fetch_parts[0], len(msgs)):
                        self.write_fetch_item(msg_num, msgs[msg_num - 1], opts)

                    self.send_response(tag, "OK FETCH completed")

                elif cmd == "NOOP":
                    self.send_response(tag, "OK NOOP")

                else:
                    self.send_response(tag, "BAD Command not recognized")

            except Exception:
                break

    def write_fetch_item(self, msg_num, m, opts):
        content = m["content"]
        fields = _HEADER_FIELDS_PATTERN.search(opts)

        if fields:
            names = fields.group(1).split()
            data = header_fields(content, names)
            resp = f"* {msg_num} FETCH (BODY[HEADER.FIELDS ({' '.join(n.upper() for n in names)})] {{{len(data)}}}\r\n"
            self.wfile.write(resp.encode("utf-8"))
            self.wfile.write(data)
            self.wfile.write(b")\r\n")
        elif "BODY" in opts.upper() or "RFC822" in opts.upper():
            resp = f"* {msg_num} FETCH (BODY[] {{{len(content)}}}\r\n"
            self.wfile.write(resp.encode("utf-8"))
            self.wfile.write(content)
            self.wfile.write(b")\r\n")
        else:
            self.wfile.write(f"* {msg_num} FETCH (UID {m['uid']})\r\n".encode("utf-8"))
        self.wfile.flush()

    def send_response(self, tag, message):
        self.wfile.write(f"{tag} {message}\r\n".encode())


class MockIMAPServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, server_address, request_handler_class, initial_folders=None, delimiter="/"):
        super().__init__(server_address, request_handler_class)
        self.delimiter = delimiter
        self.commands = []
        self.folders = {}
        if initial_folders:
            for fname, contents in initial_folders.items():
                if contents is None:
                    self.folders[fname] = None
                    continue
                self.folders[fname] = []
                for i, c in enumerate(contents):
                    if isinstance(c, bytes):
                        self.folders[fname].append({"uid": i + 1, "flags": set(), "content": c})
                    else:
                        self.folders[fname].append(c)
        else:
            self.folders = {"INBOX": []}

    def fetch_commands(self, opts_fragment):
        """FETCH commands received so far whose item list contains `opts_fragment`."""
        return [args for cmd, args in self.commands if cmd == "FETCH" and opts_fragment.upper() in args.upper()]


def start_server_thread(port=0, initial_folders=None, delimiter="/"):
    """Starts a mock server in a daemon thread. Returns (server, bound port)."""
    server = MockIMAPServer(("localhost", port), MockIMAPHandler, initial_folders, delimiter)
    server.thread = threading.Thread(target=server.serve_forever)
    server.thread.daemon = True
    server.thread.start()
    return server, server.server_address[1]
