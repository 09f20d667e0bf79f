"""Allow ``python -m position_monitor``."""
from .cli import main

main()
