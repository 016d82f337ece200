"""User interface: argparse CLI, JSON report builder and the human renderer."""
