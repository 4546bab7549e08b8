# Services package init
"""
Libris Backend — Services Layer
================================

What:  Business logic layer sitting between routes (HTTP) and database (persistence).

Service Inventory:
    - InventoryClient: Calls to the Book service (existence check, best-effort
      decrement/increment signals)
    - LoanStore: Create / find / update loan rows
    - LoanService: Loan lifecycle (create, return) orchestrating the two above
    - ProfileService: Registration, login, bearer tokens
"""
