"""
External service integrations.

ses_delivery sends rendered submissions through Amazon SES.
"""
