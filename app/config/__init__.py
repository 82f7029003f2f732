# Django project configuration: settings, URLs and the ASGI/WSGI entry points.
