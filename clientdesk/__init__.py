"""ClientDesk: client, proposal and invoice records with collision-free codes."""

__version__ = "0.4.0"
