"""Allow ``python -m toolgate``."""
from toolgate.engine.cli import main

main()
