# Routes package init
"""
Libris Backend — API Routes Package
====================================

Route Inventory:
    - loans.py:    POST /api/loan/create           (borrow a book)
                   POST /api/loans/return/{id}     (return a book)
    - profile.py:  POST /api/register              (create account)
                   POST /api/login                 (issue bearer token)
                   GET  /api/user                  (current user, bearer token)
    - health.py:   GET  /health                    (service health check)

Routes are THIN: parse the request, call a service, shape the response.
"""
