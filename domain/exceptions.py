# domain/exceptions.py
class ValidationError(Exception):
    pass


class RunStateError(Exception):
    pass
