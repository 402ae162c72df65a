"""
ACGE Kernel - dossier validation workflow

Routes accounting case files through the approval chain
Secretary -> Budget Controller -> Ordonnateur -> Accounting Agent with:
- Gate evaluation over persisted validation records
- Conditional (optimistic) status transitions
- Hash-chained audit trail
- Tamper-evident quitus certificates
"""

__version__ = "0.1.0"
