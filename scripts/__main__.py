"""Allow `python -m scripts` by running the seed script."""

from scripts.seed import main

main()
