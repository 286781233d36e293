"""Building blocks of a small 5G core simulator, with pcap capture and sequence-diagram observability."""

__version__ = "0.1.0"