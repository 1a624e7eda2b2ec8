"""Error taxonomy shared by the server routes and the client workflows.

Validation errors block a submission before any network call, remote errors
wrap failed calls to Supabase, Razorpay, Gemini or this API, and
inconsistency errors flag "successful" responses that miss required fields.
"""


class StorefrontError(Exception):
    status = 400
    default_message = 'Something went wrong'

    def __init__(self, message=None, status=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if status is not None:
            self.status = status

    def to_dict(self):
        return {'success': False, 'error': self.message}


class ValidationError(StorefrontError):
    default_message = 'Invalid request'


class EmptyCartError(ValidationError):
    default_message = 'Cart is empty'


class InvalidCartItemError(ValidationError):
    default_message = 'Cart contains an invalid item'


class MissingFieldsError(ValidationError):
    default_message = 'Please fill all required fields'

    def __init__(self, fields=(), message=None):
        self.fields = tuple(fields)
        if message is None and self.fields:
            message = f"Missing required fields: {', '.join(self.fields)}"
        super().__init__(message)


class CouponIneligibleError(ValidationError):
    default_message = 'Not enough coins to use coupon'


class InvalidPayableAmountError(ValidationError):
    default_message = 'Invalid payable amount'


class InvalidPaymentOptionError(ValidationError):
    default_message = 'Invalid payment option'


class AuthError(StorefrontError):
    status = 401
    default_message = 'Authentication required'


class ForbiddenError(StorefrontError):
    status = 403
    default_message = 'Not allowed'


class NotFoundError(StorefrontError):
    status = 404
    default_message = 'Not found'


class IllegalTransitionError(StorefrontError):
    status = 409
    default_message = 'This action is not allowed for the order'


class DataAccessError(StorefrontError):
    status = 500
    default_message = 'Database error, please try again'


class RemoteCallError(StorefrontError):
    status = 502
    default_message = 'Remote service failed, please try again'

    def __init__(self, message=None, status=None, retryable=True):
        super().__init__(message, status)
        self.retryable = retryable


class InconsistentResponseError(RemoteCallError):
    default_message = 'Remote service returned an incomplete response'

    def __init__(self, message=None, status=None):
        super().__init__(message, status, retryable=False)
