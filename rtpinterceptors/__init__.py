"""RTP/RTCP interceptors for NACK and packet dumping, with receiver report and RFC 8888 feedback builders."""

__version__ = "0.1.0"