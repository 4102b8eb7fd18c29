from slowapi import Limiter
from slowapi.util import get_remote_address

# shared by main (app.state) and the route decorators
limiter = Limiter(key_func=get_remote_address)
