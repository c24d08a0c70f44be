"""A stateless TCP sinkhole: SYN cookies, packet dissection, raw capture and a command."""

__version__ = "1.0.7"