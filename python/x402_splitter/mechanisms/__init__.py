"""Ledger mechanisms for the splitter protocol."""
