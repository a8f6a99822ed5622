BASE_URL = "http://test"

MERCADOPAGO_SECRET = "mp-webhook-secret"
MERCADOPAGO_ACCESS_TOKEN = "APP_USR-test-token"
MERCADOPAGO_API_URL = "https://api.mercadopago.test"
STRIPE_SECRET = "whsec_test_secret"

EXTERNAL_API_TOKEN = "external-token"
ADMIN_API_TOKEN = "admin-token"

USER_ID = "user-1"
COURSE_ID = "course-1"
EXTERNAL_PAYMENT_ID = "123456"

MERCADOPAGO_BODY = b'{"action":"payment.updated","data":{"id":"123456"},"type":"payment"}'
