"""Dependencies de autenticación del staff para FastAPI"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Dict
from shared.auth.jwt_handler import verify_token


security = HTTPBearer()

# Roles que pueden operar el escáner en puerta
SCANNER_ROLES = ('scanner', 'admin', 'coordinator')


def staff_from_payload(payload: Dict) -> Dict:
    '''Datos del operador a partir de los claims del token'''
    metadata = payload.get('app_metadata') or {}
    return {
        'user_id': payload.get('sub') or payload.get('user_id'),
        'email': payload.get('email'),
        'role': metadata.get('role', 'user')
    }


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Dict:
    '''Operador autenticado con JWT'''
    payload = await verify_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token inválido o expirado',
            headers={'WWW-Authenticate': 'Bearer'},
        )

    staff = staff_from_payload(payload)
    if not staff['user_id']:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token inválido: falta user_id',
        )
    return staff


async def get_current_scanner(
    current_user: Dict = Depends(get_current_user)
) -> Dict:
    '''Solo scanner, coordinator o admin pueden verificar tickets'''
    if current_user['role'] not in SCANNER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Se requieren permisos de scanner (rol actual: {current_user['role']})"
        )
    return current_user
