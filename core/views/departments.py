"""
Department endpoints.

Any staff member can list departments; only administrators add them.
Adding a department whose name already exists returns the existing one.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Department
from ..permissions import IsAdminRole
from ..serializers.doctor import DepartmentSerializer
from ..services import doctors as doctor_service


def _department_to_dict(d: Department) -> dict:
    return {
        'id': d.id,
        'name': d.name,
        'code': d.code,
        'description': d.description,
        'isActive': d.is_active,
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def departments(request):
    if request.method == 'GET':
        include_inactive = (request.query_params.get('includeInactive') or '0') in ['1', 'true', 'True']
        data = [_department_to_dict(d) for d in doctor_service.list_departments(include_inactive)]
        return Response({'ok': True, 'data': data})

    if not IsAdminRole().has_permission(request, None):
        return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    s = DepartmentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    dept = doctor_service.add_department(vd['name'], vd.get('code', ''), vd.get('description', ''))
    return Response({'ok': True, 'data': _department_to_dict(dept)}, status=status.HTTP_201_CREATED)
