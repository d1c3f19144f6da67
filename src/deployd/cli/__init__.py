"""deployd command line interface."""
