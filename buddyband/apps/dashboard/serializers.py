from rest_framework import serializers


class TeacherSessionSerializer(serializers.Serializer):
    teacherID = serializers.CharField(max_length=128, help_text="Identifier of the supervising teacher.")
    name = serializers.CharField(required=False, allow_blank=True, default='', help_text="Display name of the teacher.")

    def validate_teacherID(self, value):
        if not value.strip():
            raise serializers.ValidationError("teacherID cannot be empty.")
        return value


class LocationSerializer(serializers.Serializer):
    latitude = serializers.FloatField(read_only=True)
    longitude = serializers.FloatField(read_only=True)


class StudentSerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    name = serializers.CharField(read_only=True)
    grade = serializers.CharField(read_only=True)
    location = LocationSerializer(read_only=True, allow_null=True)
    sos_active = serializers.BooleanField(read_only=True)
    buzzer_on = serializers.BooleanField(read_only=True)
    battery = serializers.IntegerField(read_only=True, allow_null=True)


class AlertSerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    student_id = serializers.CharField(read_only=True, allow_null=True)
    type = serializers.CharField(read_only=True)
    timestamp = serializers.SerializerMethodField()

    def get_timestamp(self, obj):
        # Opaque ordering key; passed through untouched.
        return obj.timestamp


class FeedEntrySerializer(serializers.Serializer):
    alert = AlertSerializer(read_only=True)
    student_name = serializers.CharField(read_only=True, allow_null=True)


class MapMarkerSerializer(serializers.Serializer):
    student_id = serializers.CharField(read_only=True)
    name = serializers.CharField(read_only=True)
    grade = serializers.CharField(read_only=True)
    position = serializers.ListField(child=serializers.FloatField(), read_only=True)
    kind = serializers.CharField(read_only=True)
    battery = serializers.IntegerField(read_only=True, allow_null=True)


class FocusPointSerializer(serializers.Serializer):
    center = serializers.SerializerMethodField()
    zoom = serializers.IntegerField(read_only=True)
    initialized = serializers.SerializerMethodField()

    def get_center(self, obj):
        return list(obj.render_center)

    def get_initialized(self, obj):
        return not obj.is_unset


class TeacherSerializer(serializers.Serializer):
    teacher_id = serializers.CharField(read_only=True)
    name = serializers.CharField(read_only=True)


class DashboardStateSerializer(serializers.Serializer):
    teacher = TeacherSerializer(read_only=True, allow_null=True)
    students = StudentSerializer(many=True, read_only=True)
    attention = StudentSerializer(many=True, read_only=True)
    feed = FeedEntrySerializer(many=True, read_only=True)
    markers = MapMarkerSerializer(many=True, read_only=True)
    focus = FocusPointSerializer(read_only=True)
    errors = serializers.DictField(child=serializers.CharField(), read_only=True)
