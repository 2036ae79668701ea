"""Serializers for user registration and authentication."""
from rest_framework import serializers
from django.contrib.auth import authenticate
from django.contrib.auth.password_validation import validate_password
from .models import User


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'email', 'name', 'phone', 'category', 'is_admin', 'created_at']
        read_only_fields = ['id', 'is_admin', 'created_at']


class UserRegistrationSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, required=True, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True, required=True)
    category = serializers.ChoiceField(
        choices=[c for c in User.Category.choices if c[0] != User.Category.ADMIN],
        required=False,
        default=User.Category.REGULAR,
    )

    class Meta:
        model = User
        fields = ['email', 'name', 'password', 'password_confirm', 'phone', 'category']

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({'password_confirm': "Password fields didn't match."})
        return attrs

    def validate_email(self, value):
        if User.objects.filter(email=value.lower()).exists():
            raise serializers.ValidationError("A user with this email already exists.")
        return value.lower()

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        return User.objects.create_user(
            email=validated_data['email'],
            password=validated_data['password'],
            name=validated_data['name'],
            phone=validated_data.get('phone'),
            category=validated_data.get('category', User.Category.REGULAR),
        )


class UserLoginSerializer(serializers.Serializer):
    email = serializers.EmailField(required=True)
    password = serializers.CharField(required=True, write_only=True)

    def validate(self, attrs):
        email = attrs.get('email', '').lower()
        password = attrs.get('password')

        if email and password:
            user = authenticate(request=self.context.get('request'), username=email, password=password)
            if not user:
                raise serializers.ValidationError({'detail': 'Invalid email or password.'})
            if not user.is_active:
                raise serializers.ValidationError({'detail': 'User account is disabled.'})
            attrs['user'] = user
        else:
            raise serializers.ValidationError({'detail': 'Email and password are required.'})
        return attrs
