"""Main entry point for commentbuddy."""

from commentbuddy.cli import main

if __name__ == "__main__":
    main()
