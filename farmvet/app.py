# module farmvet.app
from farmvet.app_setup.factory import create_app

# App globale
app = create_app()
