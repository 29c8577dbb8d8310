# smart_transfer/main.py

import click

from smart_transfer.cli.main import stx
from smart_transfer.utils.logger import setup_logging


@click.group(context_settings=dict(help_option_names=['-h', '--help']))
def main():
    """
    Smart Transfer: a dual-pane file browser and transfer engine.

    The command-line tool lives under 'cli'. The Qt models in
    smart_transfer.gui are meant to be embedded in a desktop window.

    Example: python -m smart_transfer.main cli put report.pdf --to /srv/inbox --host example.org
    """
    setup_logging()


# --- Command Registration ---
main.add_command(stx, name='cli')

if __name__ == '__main__':
    main()
