"""
Services package.

Adapters for the ledger's external collaborators, one subpackage each:
storage, recognition and export. Import them from their subpackages.
"""
