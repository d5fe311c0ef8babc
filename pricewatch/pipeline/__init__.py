"""PriceWatch — Scheduling pipeline (sweeps, retry queue)"""
