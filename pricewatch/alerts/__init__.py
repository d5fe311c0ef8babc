"""PriceWatch — Price Alerts"""
