"""
Management command to populate the database with reference and demo data.

Creates departments, the diagnostic test catalog, a few order templates
and one demo account per staff role.  Safe to run repeatedly.
"""
from decimal import Decimal

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand
from django.db import transaction

from core.models import Department, DiagnosticGroup, DiagnosticTest, Doctor, User
from core.services import slots
from core.services.diagnostics import add_group_item
from core.services.doctors import generate_doctor_code, invalidate_doctor_cache

DEPARTMENTS = [
    ('General Medicine', 'GM'),
    ('Cardiology', 'CARD'),
    ('Orthopaedics', 'ORTH'),
    ('Paediatrics', 'PAED'),
    ('Obstetrics & Gynaecology', 'OBG'),
    ('Emergency', 'ER'),
    ('Radiology', 'RAD'),
    ('Laboratory', 'LAB'),
]

# (service_type, code, name, category, extra fields, cost)
CATALOG = [
    ('lab', 'LAB001', 'Complete Blood Count', 'Haematology', {'sample_type': 'Blood'}, '350'),
    ('lab', 'LAB002', 'Fasting Blood Sugar', 'Biochemistry', {'sample_type': 'Blood', 'fasting_required': True}, '120'),
    ('lab', 'LAB003', 'Lipid Profile', 'Biochemistry', {'sample_type': 'Blood', 'fasting_required': True}, '600'),
    ('lab', 'LAB004', 'Liver Function Test', 'Biochemistry', {'sample_type': 'Blood'}, '700'),
    ('lab', 'LAB005', 'Kidney Function Test', 'Biochemistry', {'sample_type': 'Blood'}, '650'),
    ('lab', 'LAB006', 'Urine Routine', 'Clinical Pathology', {'sample_type': 'Urine'}, '150'),
    ('lab', 'LAB007', 'Thyroid Profile', 'Endocrinology', {'sample_type': 'Blood'}, '550'),
    ('xray', 'XRY001', 'Chest X-Ray PA View', 'X-Ray', {'modality': 'X-Ray', 'body_part': 'Chest'}, '400'),
    ('xray', 'XRY002', 'Knee X-Ray AP/Lateral', 'X-Ray', {'modality': 'X-Ray', 'body_part': 'Knee'}, '450'),
    ('radiology', 'RAD001', 'CT Brain Plain', 'CT', {'modality': 'CT', 'body_part': 'Brain'}, '2500'),
    ('radiology', 'RAD002', 'MRI Lumbar Spine', 'MRI', {'modality': 'MRI', 'body_part': 'Spine'}, '6500'),
    ('scan', 'SCN001', 'USG Abdomen', 'Ultrasound', {'modality': 'Ultrasound', 'body_part': 'Abdomen'}, '1200'),
    ('scan', 'SCN002', 'Echocardiogram', 'Cardiac', {'modality': 'Echo', 'body_part': 'Heart'}, '1800'),
]

GROUPS = [
    ('Diabetes Panel', 'Biochemistry', ['LAB002', 'LAB003', 'LAB005', 'LAB006']),
    ('Master Health Check', 'Preventive', ['LAB001', 'LAB002', 'LAB003', 'LAB004', 'LAB005', 'XRY001', 'SCN001']),
    ('Cardiac Workup', 'Cardiac', ['LAB003', 'XRY001', 'SCN002']),
]

STAFF = [
    ('super', 'super', None),
    ('admin1', 'admin', None),
    ('reception1', 'receptionist', 'General Medicine'),
    ('nurse1', 'nurse', 'General Medicine'),
    ('lab1', 'lab', 'Laboratory'),
]

DOCTORS = [
    ('drmehta', 'Anil', 'Mehta', 'General Medicine', 'General Medicine', True),
    ('drrao', 'Kavya', 'Rao', 'Cardiology', 'Cardiology', False),
    ('drsingh', 'Harpreet', 'Singh', 'Orthopaedics', 'Orthopaedics', False),
    ('drfernandes', 'Lisa', 'Fernandes', 'Paediatrics', 'Paediatrics', True),
]

DEFAULT_PASSWORD = '123456'


class Command(BaseCommand):
    help = 'Populate departments, diagnostic catalog, order templates and demo staff'

    def add_arguments(self, parser):
        parser.add_argument('--no-staff', action='store_true', help='skip demo staff accounts')

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Seeding hospital data...')
        departments = self.create_departments()
        tests = self.create_catalog()
        self.create_groups(tests)
        if not options['no_staff']:
            self.create_staff(departments)
            self.create_doctors(departments)
            invalidate_doctor_cache()
        self.stdout.write(self.style.SUCCESS('Hospital data seeded.'))

    def create_departments(self):
        departments = {}
        for name, code in DEPARTMENTS:
            dept, created = Department.objects.get_or_create(name=name, defaults={'code': code})
            departments[name] = dept
            if created:
                self.stdout.write(f'department: {name}')
        return departments

    def create_catalog(self):
        tests = {}
        for service_type, code, name, category, extra, cost in CATALOG:
            test, _ = DiagnosticTest.objects.get_or_create(
                service_type=service_type,
                code=code,
                defaults={'name': name, 'category': category, 'cost': Decimal(cost), **extra},
            )
            tests[code] = test
        self.stdout.write(f'catalog: {len(tests)} tests')
        return tests

    def create_groups(self, tests):
        for name, category, codes in GROUPS:
            group, created = DiagnosticGroup.objects.get_or_create(name=name, defaults={'category': category})
            if not created:
                continue
            for index, code in enumerate(codes):
                add_group_item(group, tests[code], sort_order=index)
            self.stdout.write(f'group: {name} ({len(codes)} tests)')

    def create_staff(self, departments):
        for username, role, dept_name in STAFF:
            user, created = User.objects.get_or_create(
                username=username,
                defaults={
                    'password': make_password(DEFAULT_PASSWORD),
                    'role': role,
                    'department': departments.get(dept_name),
                    'first_name': username.capitalize(),
                    'is_staff': role in ('admin', 'super'),
                    'is_superuser': role == 'super',
                },
            )
            if created:
                self.stdout.write(f'staff: {user.username} ({role})')

    def create_doctors(self, departments):
        for username, first, last, specialization, dept_name, emergency in DOCTORS:
            if Doctor.objects.filter(user__username=username).exists():
                continue
            dept = departments[dept_name]
            user, _ = User.objects.get_or_create(
                username=username,
                defaults={
                    'password': make_password(DEFAULT_PASSWORD),
                    'role': 'doctor',
                    'department': dept,
                    'first_name': first,
                    'last_name': last,
                },
            )
            Doctor.objects.create(
                user=user,
                doctor_code=generate_doctor_code(),
                specialization=specialization,
                department=dept,
                sessions=dict(slots.DEFAULT_SESSIONS),
                available_sessions=list(slots.SESSION_ORDER),
                working_days=[1, 2, 3, 4, 5, 6],
                emergency_available=emergency,
            )
            self.stdout.write(f'doctor: Dr. {first} {last} ({specialization})')
