from docforge.settings import *

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

# Keep the pool small and fast for tests
DOCUMENT_PIPELINE = {
    'POOL_MAX_SIZE': 2,
    'POOL_MIN_SIZE': 0,
    'POOL_ACQUIRE_TIMEOUT': 2,
    'POOL_RENDER_TIMEOUT': 20,
}
