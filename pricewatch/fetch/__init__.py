"""PriceWatch — Fetch Layer (cache, rate limiter, page fetcher)"""
