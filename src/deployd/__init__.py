"""deployd: build every push, publish it behind the project's stable hostname."""

__version__ = "0.1.0"
