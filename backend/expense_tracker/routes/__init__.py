"""
Expense Tracker Backend — API Routes Package
=============================================

Route Inventory (quota policy in brackets):
    auth.py        /api/auth/*            [auth]     register, login, me,
                                                     profile, password, refresh
    expenses.py    /api/expenses/*        [general]  CRUD, filters, stats
    categories.py  /api/categories/*      [general]  list, create, delete, popular
    ai.py          /api/ai/*              [ai]       categorize, analyze-receipt,
                                                     analyze-expense, scan-receipt
    upload.py      /api/upload/*          [upload]   receipt images
    health.py      /health                [exempt]

Routes stay thin: parse the request, call a service, shape the response.
"""
