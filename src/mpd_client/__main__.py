"""Run the CLI with `python -m mpd_client`."""

from .cli import main

if __name__ == "__main__":
    main()
