"""``python -m tcpchat server|client ...``"""

import argparse

from . import client, server


def main() -> None:
    parser = argparse.ArgumentParser(prog="tcpchat", description="TCP chat application")
    sub = parser.add_subparsers(dest="mode", required=True)
    server.build_parser(sub.add_parser("server", help="run as server"))
    client.build_parser(sub.add_parser("client", help="run as client"))

    args = parser.parse_args()
    if args.mode == "server":
        server.run(args)
    else:
        client.run(args)


if __name__ == "__main__":
    main()
