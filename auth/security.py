from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from fastapi import Depends, HTTPException, status
from config import config

# Instantiate the HTTP Bearer scheme
bearer_scheme = HTTPBearer()

def get_current_client(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)):
    """Validates the Bearer token for every secured endpoint."""
    if credentials.scheme.lower() != "bearer" or credentials.credentials not in config.valid_tokens:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing Bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    # Returns the token value, which identifies the client and its tenant
    return credentials.credentials

def get_tenant_id(tenant_id: str, token: str = Depends(get_current_client)):
    """
    Resolves the tenant from the path and checks the token may act for it.
    Tokens bound to a tenant only reach that tenant, unbound tokens are service tokens.
    """
    bound_tenant = config.valid_tokens.get(token)
    if bound_tenant is not None and bound_tenant != tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token is not allowed to access this tenant.",
        )
    return tenant_id
