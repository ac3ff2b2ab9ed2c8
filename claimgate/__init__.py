"""
ClaimGate - Rate-limited textbook link claims

Server side: an address-keyed claim gate (FastAPI + claim store).
Client side: a device claim guard and claim flow (httpx).
"""

__version__ = "0.3.0"
