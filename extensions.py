from flask_jwt_extended import JWTManager

from allocation_store import BillRegistry

jwt = JWTManager()
bills = BillRegistry()
