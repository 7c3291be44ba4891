"""
Django settings for the docforge project.

Document generation pipeline: structured (ReportLab) and templated
(Jinja2 + pooled WeasyPrint engines) rendering of business documents.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'docforge-insecure-development-key')

DEBUG = os.environ.get('DJANGO_DEBUG', 'false').lower() == 'true'

ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'documents',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'docforge.urls'

DATABASES = {
    'default': {
        'ENGINE': os.environ.get('DOCFORGE_DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.environ.get('DOCFORGE_DB_NAME', str(BASE_DIR / 'db.sqlite3')),
        'USER': os.environ.get('DOCFORGE_DB_USER', ''),
        'PASSWORD': os.environ.get('DOCFORGE_DB_PASSWORD', ''),
        'HOST': os.environ.get('DOCFORGE_DB_HOST', ''),
        'PORT': os.environ.get('DOCFORGE_DB_PORT', ''),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Document pipeline configuration (see documents.services.config)
DOCUMENT_PIPELINE = {
    'POOL_MAX_SIZE': int(os.environ.get('DOCFORGE_POOL_MAX_SIZE', 2)),
    'POOL_MIN_SIZE': int(os.environ.get('DOCFORGE_POOL_MIN_SIZE', 1)),
    'POOL_IDLE_TIMEOUT': float(os.environ.get('DOCFORGE_POOL_IDLE_TIMEOUT', 300)),
    'POOL_ACQUIRE_TIMEOUT': float(os.environ.get('DOCFORGE_POOL_ACQUIRE_TIMEOUT', 10)),
    'POOL_RENDER_TIMEOUT': float(os.environ.get('DOCFORGE_POOL_RENDER_TIMEOUT', 30)),
    'OUTPUT_DPI': int(os.environ.get('DOCFORGE_OUTPUT_DPI', 300)),
    'MAX_GROUP_ROWS': int(os.environ.get('DOCFORGE_MAX_GROUP_ROWS', 500)),
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'documents': {
            'handlers': ['console'],
            'level': os.environ.get('DOCFORGE_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
        'reports': {
            'handlers': ['console'],
            'level': os.environ.get('DOCFORGE_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
