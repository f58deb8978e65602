"""WSGI JSON API, log stream and web page over the ankiced services."""