"""
Monitoring Module

Contains the page-level functionality:
- Product page checks
- Browser session and login management
- CAPTCHA solving
- Add-to-cart flow
"""
