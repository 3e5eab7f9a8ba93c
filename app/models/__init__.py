from app.models.loan import Loan
from app.models.loan_application import LoanApplication
from app.models.loan_document import LoanDocument
from app.models.loan_number_sequence import LoanNumberSequence

__all__ = [
    "Loan",
    "LoanApplication",
    "LoanDocument",
    "LoanNumberSequence",
]
