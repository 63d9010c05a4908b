"""
Wire-level protocol: packets, correlation ids and payload codecs.
"""
from .codec import IDENTITY_CODEC, TopicCodec
from .packet import Packet, new_correlation_id

__all__ = ["IDENTITY_CODEC", "Packet", "TopicCodec", "new_correlation_id"]
